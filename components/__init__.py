"""Components package for Pulumi infrastructure.

Serverless backend:
- BackendComponent: Wires every component below from a validated plan
- TablesComponent: DynamoDB tables
- PostgresComponent: Aurora PostgreSQL with the Data API and migrations
- FunctionsComponent: Lambda functions
- GraphqlApiComponent: AppSync API, data sources and resolvers
- AuthComponent: Cognito user pool and identity pool
- LambdaPermissionsComponent: Per-Lambda IAM policies
"""

from components.auth import AuthComponent
from components.backend import BackendComponent, assemble
from components.functions import FunctionsComponent
from components.graphql_api import GraphqlApiComponent
from components.iam import LambdaPermissionsComponent
from components.postgres import PostgresComponent
from components.tables import TablesComponent
from components.vpc import VPCComponent

__all__ = [
    "AuthComponent",
    "BackendComponent",
    "FunctionsComponent",
    "GraphqlApiComponent",
    "LambdaPermissionsComponent",
    "PostgresComponent",
    "TablesComponent",
    "VPCComponent",
    "assemble",
]
