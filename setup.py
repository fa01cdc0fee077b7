from pathlib import Path

from setuptools import find_namespace_packages, setup

ROOT = Path(__file__).parent

readme = (ROOT / "README.md").read_text(encoding="utf-8") if (ROOT / "README.md").exists() else ""

setup(
    name="energy-reserve-scheduler",
    version="1.0.0",
    description="Backup reserve scheduling, drift reconciliation and weather-aware overrides for home batteries",
    long_description=readme,
    long_description_content_type="text/markdown",
    author="Sebastian Gomez",
    author_email="patoruzuy@tutanota.com",
    packages=find_namespace_packages(include=("app", "app.*", "infrastructure", "infrastructure.*")),
    python_requires=">=3.10,<4",
    install_requires=[
        "flask>=3.0.0",
        "pydantic>=2.5.0",
        "requests>=2.31.0",
        "croniter>=2.0.0",
        "tzdata>=2024.1; platform_system=='Windows'",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-cov>=4.1.0",
            "black>=23.7.0",
            "flake8>=6.0.0",
            "mypy>=1.5.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Topic :: Home Automation",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    keywords="energy battery backup-reserve solar scheduling automation",
    entry_points={
        "console_scripts": [
            "energy-scheduler=app.workers.scheduler_cli:main",
        ]
    },
)
