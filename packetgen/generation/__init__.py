# packetgen/generation/__init__.py
