"""Habitat: controller and admission webhook for elastic batch Jobs."""

__version__ = "0.1.0"
