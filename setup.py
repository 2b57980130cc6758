"""
Setup script for lodgify_payload_pipeline package.
"""

from setuptools import setup, find_packages

setup(
    name="lodgify-payload-pipeline",
    version="1.0.0",
    description="Pipeline de génération et validation des grilles tarifaires Lodgify",
    author="PricEye Team",
    packages=find_packages(include=["lodgify_payload_pipeline", "lodgify_payload_pipeline.*"]),
    install_requires=[
        "aiohttp>=3.9.0",
        "supabase>=2.0.0",
        "python-dotenv>=1.0.0",
        "pytz>=2023.3",
        "python-dateutil>=2.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "generate-lodgify-payloads=lodgify_payload_pipeline.jobs.generate_payloads:main",
        ],
    },
    python_requires=">=3.9",
)
