"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest and makes fixtures
available to all test files.
"""

import sys
import os

# Set AWS region for tests (required by boto3 clients even with moto mocking)
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('AWS_REGION', 'us-west-2')

# Fake credentials so boto3 never reaches for a real profile
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')

# Make the shared fixtures package importable
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

# Add kb-retrieve directory to path so tests can import its modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'kb-retrieve')))
