"""Tunecast: render Drive media into videos and publish them to YouTube"""
