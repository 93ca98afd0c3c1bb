"""plsqlnav - PL/SQL Language Server."""
