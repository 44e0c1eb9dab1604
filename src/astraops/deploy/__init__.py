"""
Deployment machinery: the process runner, path redaction, Kubernetes
manifest rendering, STS credential acquisition and the phase executors.

Tags:
    astraops, deploy, terraform, kubectl, helm, aws-cli
"""
