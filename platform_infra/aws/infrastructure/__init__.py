"""AWS resource declarations: network, IAM, ECR, ECS, EC2, RDS, ALB and S3."""
