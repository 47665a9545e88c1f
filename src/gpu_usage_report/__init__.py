"""Kubernetes GPU usage reporter.

Collects GPU claims from pods and GPU capacity from nodes through the
Kubernetes API, aggregates them per namespace, workload and node, and
renders a plain-text report or exports the same figures as Prometheus
metrics.
"""

__version__ = "0.1.0"
