"""Workers package initialization"""
