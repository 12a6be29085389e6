"""Pulumi mocks for assembling the backend without a cloud provider."""

import pulumi

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"


class BackendMocks(pulumi.runtime.Mocks):
    """Echo inputs back as outputs and fill in the computed values we read."""

    def __init__(self):
        self.resources: list[pulumi.runtime.MockResourceArgs] = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        self.resources.append(args)
        outputs = dict(args.inputs)
        name = outputs.get("name", args.name)

        outputs.setdefault("arn", f"arn:aws:mock:{REGION}:{ACCOUNT_ID}:{args.typ}/{name}")

        if args.typ == "aws:lambda/function:Function":
            outputs["arn"] = f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:{name}"
        elif args.typ == "aws:appsync/graphQLApi:GraphQLApi":
            outputs["uris"] = {"GRAPHQL": f"https://{name}.appsync-api.{REGION}.amazonaws.com/graphql"}
        elif args.typ == "aws:appsync/function:Function":
            outputs["functionId"] = f"{name}-function-id"
        elif args.typ == "aws:cognito/userPool:UserPool":
            outputs["endpoint"] = f"cognito-idp.{REGION}.amazonaws.com/{args.name}_id"
        elif args.typ == "aws:rds/cluster:Cluster":
            outputs["masterUserSecrets"] = [
                {
                    "kmsKeyId": "",
                    "secretArn": f"arn:aws:secretsmanager:{REGION}:{ACCOUNT_ID}:secret:{name}",
                    "secretStatus": "active",
                }
            ]

        return [f"{args.name}_id", outputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        if args.token == "aws:index/getCallerIdentity:getCallerIdentity":
            return {
                "accountId": ACCOUNT_ID,
                "arn": f"arn:aws:iam::{ACCOUNT_ID}:user/test",
                "id": ACCOUNT_ID,
                "userId": "test",
            }
        if args.token == "aws:index/getAvailabilityZones:getAvailabilityZones":
            return {
                "id": REGION,
                "names": [f"{REGION}a", f"{REGION}b", f"{REGION}c"],
                "zoneIds": ["use1-az1", "use1-az2", "use1-az3"],
            }
        return {}


MOCKS = BackendMocks()
pulumi.runtime.set_mocks(MOCKS, preview=False)
