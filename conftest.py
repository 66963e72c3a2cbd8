"""Root pytest configuration.

`pytest_plugins` may only be declared here, in the rootdir conftest.
"""

pytest_plugins = [
    "pytest_databases.docker.postgres",
]
