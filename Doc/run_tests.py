#!/usr/bin/env python
"""
Test runner script for the allocation ledger suites
Usage: python Doc/run_tests.py [app_label ...]
Coverage: coverage run Doc/run_tests.py && coverage report
"""
import os
import sys

import django
from django.conf import settings
from django.test.utils import get_runner

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

DEFAULT_SUITES = [
    'backend.core',
    'backend.allocations',
]

if __name__ == "__main__":
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.config.settings')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    failures = test_runner.run_tests(sys.argv[1:] or DEFAULT_SUITES)
    sys.exit(bool(failures))
