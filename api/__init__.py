"""
Client da API do backend de consultas
"""
