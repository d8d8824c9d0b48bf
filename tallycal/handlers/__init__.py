"""
Report handlers, loaded by module name with --module
"""
