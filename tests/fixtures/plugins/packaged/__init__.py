"""Plugin packaged as a directory."""


def start(container):
    container.services.provide("packaged", True)


def end(container):
    container.services.withdraw("packaged")
