#!/usr/bin/env python3
#
# see: https://setuptools.pypa.io/en/latest/userguide/quickstart.html

import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="perturbation_explanations",
    version="1.0.0",
    description="Perturbation-based feature attributions with stability, drift and robustness measures.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src"),
    install_requires=[
        "numpy",
        "pandas",
        "joblib",
        'tomli; python_version < "3.11"',
    ],
    extras_require={
        "test": ["pytest", "scikit-learn"],
    },
    python_requires=">=3.9",
)
