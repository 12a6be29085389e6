"""VPC Component - Network for the Postgres cluster.

Creates a VPC with isolated private subnets across availability zones.
The cluster is only reached through the RDS Data API, so there is no
internet gateway or NAT.
"""

import pulumi
import pulumi_aws as aws

from common.constants import ID_PART_VPC
from common.naming import format_resource_id


class VPCComponent(pulumi.ComponentResource):
    """VPC with isolated subnets for an Aurora cluster."""

    def __init__(
        self,
        name: str,
        cidr_block: str = "10.0.0.0/16",
        availability_zones: int = 2,
        tags: dict | None = None,
        opts: pulumi.ResourceOptions | None = None,
    ):
        super().__init__("backend:network:VPC", name, None, opts)

        self.tags = tags or {}
        vpc_id = format_resource_id(name, ID_PART_VPC)

        # Get available AZs in the region
        available_azs = aws.get_availability_zones(state="available")
        az_names = available_azs.names[:availability_zones]

        self.vpc = aws.ec2.Vpc(
            vpc_id,
            cidr_block=cidr_block,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags={**self.tags, "Name": vpc_id},
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.private_subnets: list[aws.ec2.Subnet] = []
        for i, az in enumerate(az_names):
            subnet_id = format_resource_id(vpc_id, "isolated", "subnet", str(i))
            self.private_subnets.append(
                aws.ec2.Subnet(
                    subnet_id,
                    vpc_id=self.vpc.id,
                    cidr_block=f"10.0.{i * 16}.0/20",
                    availability_zone=az,
                    tags={**self.tags, "Name": f"{subnet_id}-{az}"},
                    opts=pulumi.ResourceOptions(parent=self),
                )
            )

        self.private_subnet_ids = pulumi.Output.all(
            *[s.id for s in self.private_subnets]
        ).apply(lambda ids: list(ids))

        self.register_outputs(
            {
                "vpc_id": self.vpc.id,
                "private_subnet_ids": self.private_subnet_ids,
            }
        )
