"""
moodle-deploy - single-host Moodle + MySQL deployment automation.

Packages:
- moodle_deploy.core: errors, logging, configuration loading
- moodle_deploy.deploy: topology, compose generation, docker client, drivers
- moodle_deploy.cli: the ``moodle-deploy`` command line
"""

__version__ = "0.1.0"
