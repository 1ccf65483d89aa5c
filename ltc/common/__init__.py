"""Shared configuration, exceptions and wire models."""
