from setuptools import setup
from pathlib import Path

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="pagedriver",
    version="0.3.0",
    description="Callback-driven webpage controller for zendriver",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=[
        "pagedriver",
        "pagedriver.frames",
        "pagedriver.keyboard",
        "pagedriver.mouse",
        "pagedriver.page",
    ],
    install_requires=[
        "zendriver",
        "Pillow",
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
)
