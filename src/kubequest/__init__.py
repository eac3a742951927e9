"""
kubequest - a Kubernetes administration simulator.

A fake cluster, a virtual Linux filesystem and interpreters for kubectl,
etcdctl, helm and common shell commands, driven one input line at a time.
"""

from __future__ import annotations

__version__ = "0.1.0"

from kubequest.simulator import Simulator

__all__ = ["Simulator", "__version__"]
