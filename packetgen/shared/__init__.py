# packetgen/shared/__init__.py
