"""Platform adapters for Clinical Gateway.

This module contains the two transports used to reach the ontology-object
platform (typed object-set client and raw REST search), the OAuth
client-credentials token provider they share, and the profile directory.
"""
