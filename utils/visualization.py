from typing import Optional
import numpy as np
import matplotlib
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
import logging

from garch.models import VolatilityAnalysis, VolatilityRegime

logger = logging.getLogger(__name__)

REGIME_COLORS = {
    VolatilityRegime.LOW: '#4c72b0',
    VolatilityRegime.NORMAL: '#55a868',
    VolatilityRegime.HIGH: '#dd8452',
    VolatilityRegime.EXTREME: '#c44e52',
}


class VolatilityVisualizer:
    """Plots conditional volatility paths and forecasts"""

    def __init__(self, style: str = 'whitegrid', backend: Optional[str] = None):
        """
        Initialize visualizer

        Parameters:
        -----------
        style : str
            Seaborn style name. Default is 'whitegrid'.
        backend : str, optional
            Matplotlib backend to switch to, e.g. 'Agg' for headless runs
        """
        if backend:
            matplotlib.use(backend)
        try:
            sns.set_style(style)
        except ValueError:
            logger.warning(f"Style '{style}' not found, using default style")
            sns.set_style('whitegrid')

        self.colors = sns.color_palette()

    def plot_volatility_path(self, returns: np.ndarray,
                             volatility_path: np.ndarray,
                             title: Optional[str] = None,
                             save_path: Optional[Path] = None) -> plt.Figure:
        """
        Plot absolute returns against the conditional volatility path

        Parameters:
        -----------
        returns : array-like
            Return series the path was computed from
        volatility_path : array-like
            Conditional volatility, same length as returns
        title : str, optional
            Plot title
        save_path : Path, optional
            Path to save figure
        """
        if len(returns) == 0 or len(volatility_path) == 0:
            raise ValueError("Empty input data")
        if len(returns) != len(volatility_path):
            raise ValueError(
                f"Length mismatch: {len(returns)} returns vs {len(volatility_path)} volatilities"
            )

        fig, ax = plt.subplots(figsize=(12, 6))
        steps = np.arange(len(returns))

        ax.bar(steps, np.abs(returns), color=self.colors[0], alpha=0.4, label='|return|')
        ax.plot(steps, volatility_path, color=self.colors[3], linewidth=2,
                label='Conditional volatility')

        ax.set_xlabel('Period')
        ax.set_ylabel('Volatility')
        if title:
            ax.set_title(title)
        ax.legend()

        if save_path:
            fig.savefig(save_path)

        return fig

    def plot_analysis(self, analysis: VolatilityAnalysis,
                      title: Optional[str] = None,
                      save_path: Optional[Path] = None) -> plt.Figure:
        """Conditional volatility history followed by the forecast, coloured by regime"""
        path = analysis.volatility_path
        forecast = analysis.forecast.volatilities
        history_steps = np.arange(len(path))
        forecast_steps = np.arange(len(path) - 1, len(path) + len(forecast))

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.plot(history_steps, path, color=self.colors[0], label='Conditional volatility')
        ax.plot(forecast_steps, np.concatenate([[path[-1]], forecast]),
                color=REGIME_COLORS[analysis.regime], linestyle='--',
                label=f"Forecast ({analysis.regime.value})")
        ax.axhline(np.sqrt(analysis.params.long_run_variance), color='grey',
                   linestyle=':', label='Long-run level')

        ax.set_xlabel('Period')
        ax.set_ylabel('Volatility')
        ax.set_title(title or f"GARCH(1,1) persistence {analysis.persistence:.2f}")
        ax.legend()

        if save_path:
            fig.savefig(save_path)
            logger.info(f"Saved volatility plot to {save_path}")

        return fig

    def close_all(self):
        """Close all open figures"""
        plt.close('all')
