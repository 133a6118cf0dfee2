"""Rankicard progression and rewards engine"""
