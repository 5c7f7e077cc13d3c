"""faultpath — guided equipment troubleshooting over question/conclusion graphs."""

__version__ = "0.1.0"
