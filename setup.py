"""Setup configuration for furniture-marketplace-cart project."""

from setuptools import setup, find_packages

setup(
    name="furniture-marketplace-cart",
    version="1.0.0",
    description="Furniture marketplace cart, order totals and distance-based shipping quotes",
    author="Your Name",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn>=0.27.0",
        "redis>=5.0.0",
        "confluent-kafka>=2.3.0",
        "sqlalchemy>=2.0.23",
        "psycopg2-binary>=2.9.9",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "httpx>=0.27.0",
        "PyJWT>=2.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "fakeredis>=2.21.0",
        ],
    },
)
