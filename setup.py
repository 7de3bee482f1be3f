#!/usr/bin/env python3
"""
SCAPE-M - Self-Contained Atmospheric Parameters Estimation for MERIS
"""
from setuptools import setup, find_packages
import os

# Read long description from README
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='scapem',
    version='0.1.0',
    author='Judy Northrop',
    author_email='your.email@example.com',
    description='SCAPE-M atmospheric correction for MERIS over land',
    long_description=long_description,
    long_description_content_type='text/markdown',
    url='https://github.com/yourusername/scapem',
    packages=find_packages(include=['scapem', 'scapem.*']),
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Atmospheric Science',
        'Topic :: Scientific/Engineering :: Image Processing',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
    ],
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.20.0',
        'scipy>=1.7.0',
        'spectral>=0.22.0',
        'scikit-learn>=0.24.0',
        'tqdm>=4.60.0',
        'pyyaml>=5.4',
    ],
    extras_require={
        'dev': ['pytest>=6.2.0', 'pytest-cov>=2.12.0'],
    },
    entry_points={
        'console_scripts': [
            'scapem-correct=scapem.cli:main_correct',
            'scapem-lut=scapem.cli:main_lut',
        ],
    },
)
