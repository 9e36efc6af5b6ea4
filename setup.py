from setuptools import find_packages, setup

setup(
    name="tinytales-backend",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["bootloader"],
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "pydantic>=2.5",
        "aiohttp>=3.9",
        "openai>=1.30",
        "redis>=5.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "Pillow>=10.1",
        "pydub>=0.25",
        "audioop-lts>=0.2; python_version >= '3.13'",
        "reportlab>=4.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "tinytales-studio=services.studio.cli:main",
            "tinytales-service=bootloader:main",
        ],
    },
    include_package_data=True,
    description="TinyTales: AI story writing, illustration, narration and PDF/GIF/video export",
    author="Andreas Malathouras",
    author_email="steelstridertgm@gmail.com",
)
