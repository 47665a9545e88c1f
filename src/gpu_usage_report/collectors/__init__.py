"""Collectors package for Kubernetes GPU inventory.

Contains the cluster inventory collector: ``claims`` resolves pods into GPU
claims and ``capacity`` resolves nodes into advertised GPU capacity.
``snapshot`` combines both into one consistent inventory for a report or a
metrics scrape.
"""
