"""Wallaplus: local second-hand marketplace for Terrassa."""
