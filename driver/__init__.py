"""AWS external resource driver."""
