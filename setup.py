from setuptools import setup, find_namespace_packages
from pathlib import Path

here = Path(__file__).resolve().parent
requirements_path = here / "requirements.txt"
install_requires = []
if requirements_path.exists():
    install_requires = [
        line for line in requirements_path.read_text().splitlines()
        if line.strip() and not line.startswith("#")
    ]

readme_path = here / "README.md"

setup(
    name="spending-dashboard",
    version="0.1.0",
    description="Personal finance dashboard backend: Plaid-linked accounts and cached transaction history",
    long_description=readme_path.read_text() if readme_path.exists() else "",
    long_description_content_type="text/markdown",
    license="MIT",
    keywords="plaid, personal finance, transactions, dashboard",
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
    packages=find_namespace_packages(include=["dashboard_app", "dashboard_app.*"]),
    include_package_data=True,
    zip_safe=False,
    platforms="any",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: MIT License",
        "Topic :: Office/Business :: Financial",
    ],
)
