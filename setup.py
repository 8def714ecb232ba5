from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="raas-orchestrator",
    version="0.1.0",
    author="Rollup Infrastructure Team",
    author_email="",
    description="Rollup-as-a-Service - lifecycle orchestration for Arbitrum Nitro rollups with Espresso",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "backend"},
    packages=find_packages(where="backend", include=["raas", "raas.*"]),
    package_data={"raas.services.deployment": ["templates/*"]},
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "fastapi>=0.100.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "PyYAML>=6.0",
        "docker>=7.1.0",
        "tenacity>=8.2.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "server": [
            "uvicorn>=0.23.0",
        ],
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.25.0",
        ],
    },
)
