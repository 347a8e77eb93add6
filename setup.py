"""
Setup script for the Satellite Scene Change Detection System.
"""

from setuptools import setup, find_packages
import os


def read_readme():
    """Read README file for long description."""
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "Robust alignment and multi-signal change detection for satellite image pairs"


# Core requirements (always installed)
install_requires = [
    'opencv-python>=4.5.0,<5',
    'numpy>=1.19.0',
    'scipy>=1.7.0',
    'scikit-image>=0.19.0',
    'scikit-learn>=1.0.0',
]

# Optional dependencies for different use cases
extras_require = {
    'dev': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0',
        'black>=21.0.0',
        'isort>=5.9.0',
        'flake8>=3.9.0'
    ],
}

setup(
    name="scene-change-detection",
    version="1.0.0",
    author="Scene Change Detection Team",
    description="Robust alignment and multi-signal change detection for satellite image pairs",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['tests', 'tests.*']),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Topic :: Scientific/Engineering :: GIS",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    keywords=[
        "computer vision",
        "change detection",
        "image registration",
        "satellite imagery",
        "remote sensing",
        "RANSAC",
        "SSIM",
        "opencv"
    ],
)
