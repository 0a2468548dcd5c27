from enum import Enum

class GenerationStage(str, Enum):
    PREPROCESS = "PREPROCESS"
    RESOLVE = "RESOLVE"
    STORAGE = "STORAGE"
    RPC = "RPC"
    GRAPHQL = "GRAPHQL"
    PACKAGE = "PACKAGE"
    WRITE = "WRITE"
