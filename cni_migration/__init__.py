"""Live, node-by-node migration of a Kubernetes cluster between network plugins."""

__version__ = "0.1.0"
