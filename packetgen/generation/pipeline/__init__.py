# packetgen/generation/pipeline/__init__.py
