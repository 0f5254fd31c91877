from setuptools import setup, find_packages

setup(
    name="business-crawler",
    version="0.1",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=[
        "langchain-core",
        "langchain-google-genai",
        "langchain-deepseek",
        "playwright",
        "beautifulsoup4",
        "python-dotenv",
        "aiohttp",
        "pydantic>=2",
        "fastapi",
        "uvicorn",
        "tenacity",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "bizcrawler=bizcrawler.cli:main",
            "bizcrawler-server=bizcrawler.server:main",
        ],
    },
)
