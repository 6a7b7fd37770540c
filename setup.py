"""
Nitpickr API

Real-estate discovery and collaboration service: listing search, AI nitpick
reports, team workspaces, issue discussion and Stripe billing with usage limits.
"""

from setuptools import setup, find_packages

setup(
    name="nitpickr",
    version="1.0.0",
    description="Nitpickr - real-estate nitpicks, teams and billing API",
    author="Nitpickr",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        # Web framework
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "python-multipart>=0.0.9",

        # Configuration and validation
        "pydantic[email]>=2.5.0",
        "pydantic-settings>=2.1.0",

        # PostgreSQL support
        "sqlalchemy[asyncio]>=2.0.25",
        "asyncpg>=0.29.0",

        # Database migrations
        "alembic>=1.13.0",

        # Cache and usage counters
        "redis>=5.0.0",

        # AI/search backend client
        "httpx>=0.26.0",

        # Security
        "python-jose[cryptography]>=3.3.0",
        "bcrypt>=4.1.0",

        # Billing and email
        "stripe>=8.0.0",
        "resend>=0.7.0",

        # Upload storage backends
        "boto3>=1.34.0",
        "google-cloud-storage>=2.14.0",

        # Scheduled jobs
        "croniter>=2.0.0",

        # Monitoring and observability
        "sentry-sdk[fastapi]>=1.39.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.1.0",
            "aiosqlite>=0.19.0",
            "black>=23.10.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "License :: Other/Proprietary License",
    ],
)
