"""
Runners for deferred embedding refresh jobs.
"""
