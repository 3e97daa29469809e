"""Offer navigation backend."""
