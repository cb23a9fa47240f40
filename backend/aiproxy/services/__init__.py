"""
Services layer for the AI proxy.

MODULES:
- ai/: provider resolution, request adaptation, provider families, stream
  normalization and image assembly behind AIGateway
"""
