"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="pair-chat",
    version="0.1.0",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=23.1",
        "prometheus-client>=0.19",
        "opentelemetry-instrumentation-fastapi>=0.43b0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
