"""Functions for the niftivol command line scripts"""
