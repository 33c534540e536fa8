"""
WordPress - project lifecycle on top of the managed stack
"""

from containerflow.wordpress.projects import WordPressProjects, next_instance_name

__all__ = ["WordPressProjects", "next_instance_name"]
