"""Loaders that turn raw CSV text into ``RawTable`` values."""
