"""govdeploy - dependency-ordered provisioning of on-chain governance."""

__version__ = "0.1.0"
