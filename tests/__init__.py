"""Tests for the capture_filters package."""
