"""
Test suite for the Multi-Clinic Healthcare System.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
