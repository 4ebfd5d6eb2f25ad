"""Main setup file for wifctl
Setup file for the wifctl package

This project is using the modern pyproject.toml format and this file is only required for running:
``pip install -e .``

:Module: setup
"""
from setuptools import setup

setup()
