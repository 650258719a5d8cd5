#!/usr/bin/env python3
"""
Setup script for Typist
"""

from setuptools import setup, find_packages
import os
import re


def read_file(filename):
    with open(os.path.join(os.path.dirname(__file__), filename), encoding='utf-8') as f:
        return f.read()


# Version lives in the package; read it without importing the package
__version__ = re.search(
    r"__version__\s*=\s*'([^']+)'", read_file(os.path.join('typist', '__init__.py'))
).group(1)

setup(
    name='typist',
    version=__version__,
    description='Typist - switch the keyboard layout automatically for each application (X11)',
    long_description=read_file('README.md'),
    long_description_content_type='text/markdown',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.8',
    install_requires=[
        'python-xlib',   # Foreground window tracking via EWMH properties
    ],
    extras_require={
        'dev': [
            'pytest>=7.0',
            'pytest-cov',
            'pytest-timeout',
        ],
    },
    entry_points={
        'console_scripts': [
            'typist=typist.cli:main',
        ],
    },
    data_files=[
        # systemd user service
        ('share/systemd/user', ['config/typist.service']),
    ],
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Utilities',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Programming Language :: Python :: 3.13',
        'Operating System :: POSIX :: Linux',
        'Environment :: X11 Applications',
        'Topic :: Desktop Environment',
    ],
)
