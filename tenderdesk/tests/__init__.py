"""Tests for the Tender Desk service."""
