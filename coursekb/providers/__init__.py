"""Concrete adapters for the interfaces in :mod:`coursekb.interfaces`."""
