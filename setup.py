from setuptools import setup, find_packages

setup(
    name="upbound-agent-operator",
    version="0.1.0",
    description="Kubernetes operator that manages the Upbound Agent deployment from a control plane token secret",
    author="Upbound",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "kopf>=1.37.0",
        "kubernetes>=28.1.0,<37",
        "pyyaml>=6.0",
        "urllib3>=1.26",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "upbound-agent-operator=upbound_agent_operator.operator:main",
        ],
    },
)
