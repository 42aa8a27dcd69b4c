"""Rendering of pull request bodies and contribution reports."""
