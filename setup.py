from setuptools import setup, find_packages

setup(
    name="volatility-signal-engine",
    version="0.1.0",
    packages=find_packages(exclude=["tests"]),
    py_modules=["models", "run_signal"],
    install_requires=[
        "numpy",
        "pandas",
        "matplotlib",
        "seaborn",
        "httpx",
        "python-dotenv",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "run-signal=run_signal:main",
        ],
    },
    python_requires=">=3.8",
)
