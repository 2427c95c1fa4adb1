"""Typed views over the Kubernetes objects the cert manager reads and writes."""
