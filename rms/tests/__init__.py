"""Tests for :mod:`rms`."""
