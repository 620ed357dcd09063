# setup.py
from setuptools import setup, find_namespace_packages

setup(
    name="zkrollup",
    version="0.1.0",
    packages=find_namespace_packages(include=["zkrollup", "zkrollup.*"]),
    python_requires=">=3.10",
    install_requires=[
        "msgpack",             # account and batch records
        "rlp",                 # tree nodes, signature envelopes
        "pycryptodome",        # keccak
        "cryptography",        # ECDSA
        "plyvel",              # LevelDB
        "prometheus-client",   # metrics
        "psutil",              # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "zkrollup-genesis=zkrollup.genesis_tool:main",
        ],
    },
)
