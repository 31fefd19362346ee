"""Build the levelinfo package."""
from setuptools import setup


setup()
