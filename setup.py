#! /usr/bin/env python
# SPDX-License-Identifier: GPL-2.0-or-later

from setuptools import setup, find_packages

setup(
    name='botarena',
    version='1.0',
    description='Match orchestration engine for game-playing programs',
    author='botarena contributors',
    packages=find_packages(include=['botarena', 'botarena.*']),
    python_requires='>=3.8',
    install_requires=[
        'aiohttp',
        'prometheus_client',
        'PyYAML',
        'tenacity',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-aiohttp',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    zip_safe=False,
)
