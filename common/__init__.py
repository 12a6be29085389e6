"""Shared configuration, naming and errors."""
