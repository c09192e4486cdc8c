#!/usr/bin/env python3
"""
Setup script for tagcodec.

tagcodec is pure Python; YAML parsing and emission are delegated to PyYAML.

Install for development with tests:
    pip install -e '.[test]'
"""

import os

from setuptools import setup


def read_version():
    """Read __version__ from the package without importing it."""
    path = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                        'tagcodec', '__init__.py')
    with open(path, encoding='utf-8') as f:
        for line in f:
            if line.startswith('__version__'):
                return line.split('=', 1)[1].strip().strip('\'"')
    raise RuntimeError("unable to find __version__")


setup(
    name='tagcodec',
    version=read_version(),
    description='Tagged object graph codec: typed, shared and cyclic objects from YAML',
    packages=['tagcodec'],
    package_data={'tagcodec': ['*.pyi']},
    python_requires='>=3.8',
    install_requires=['PyYAML>=5.1'],
    extras_require={
        'test': ['pytest'],
    },
)
