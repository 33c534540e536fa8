"""
MySQL - administration of the managed MySQL container
"""

from containerflow.mysql.client import (
    MySQLAdmin,
    generate_random_password,
    project_db_identifier,
)

__all__ = ["MySQLAdmin", "generate_random_password", "project_db_identifier"]
