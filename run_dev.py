#!/usr/bin/env python3
"""
Development server for the Cognito session service

Resolves the user pool from the environment, a local .env file or the
outputs of the CloudFormation stack that created it, reports how the pool
is set up and starts uvicorn.
"""
import argparse
import os
import sys
from typing import Dict, Optional

import boto3
import uvicorn
from botocore.exceptions import ClientError, NoCredentialsError

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# CloudFormation output key -> environment variable
STACK_OUTPUTS = {
    'UserPoolId': 'COGNITO_USER_POOL_ID',
    'UserPoolClientId': 'COGNITO_CLIENT_ID',
}


def read_env_file(path: str) -> Dict[str, str]:
    """Parse KEY=VALUE lines, skipping blanks and comments"""
    values = {}
    with open(path, 'r') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue
            key, value = line.split('=', 1)
            values[key.strip()] = value.strip().strip('"\'')
    return values


def apply_env_file(path: str) -> None:
    if not os.path.exists(path):
        return

    print(f"📄 Loading {path}")
    try:
        loaded = read_env_file(path)
    except OSError as e:
        print(f"   ⚠️  Could not read {path}: {e}")
        return

    for key, value in loaded.items():
        os.environ.setdefault(key, value)
    print(f"   ✅ {len(loaded)} entries (environment takes precedence)")


def fill_from_stack(stack_name: str, region: str) -> int:
    """
    Copy user pool ids from stack outputs into unset environment variables

    Returns:
        int: Number of variables filled
    """
    missing = [env_var for env_var in STACK_OUTPUTS.values() if not os.getenv(env_var)]
    if not missing:
        return 0

    print(f"☁️  Reading outputs of stack {stack_name} ({region})")
    try:
        cf_client = boto3.client('cloudformation', region_name=region)
        stack = cf_client.describe_stacks(StackName=stack_name)['Stacks'][0]
    except NoCredentialsError:
        print("   ⚠️  AWS credentials not configured. Run 'aws configure'")
        return 0
    except ClientError as e:
        if e.response['Error']['Code'] == 'ValidationError':
            print(f"   ⚠️  Stack '{stack_name}' not found")
        else:
            print(f"   ⚠️  CloudFormation error: {e.response['Error']['Code']}")
        return 0

    outputs = {output['OutputKey']: output['OutputValue'] for output in stack.get('Outputs', [])}
    filled = 0
    for output_key, env_var in STACK_OUTPUTS.items():
        if env_var in missing and output_key in outputs:
            os.environ[env_var] = outputs[output_key]
            filled += 1
            print(f"   ✅ {env_var} = {outputs[output_key]}")
    return filled


def describe_pool(region: str, pool_id: str, client_id: str) -> Optional[Dict[str, str]]:
    """
    Summarise the pool settings that matter to the session manager

    Needs IAM credentials allowed to call cognito-idp:DescribeUserPool and
    DescribeUserPoolClient; returns None otherwise.
    """
    cognito_client = boto3.client('cognito-idp', region_name=region)
    try:
        pool = cognito_client.describe_user_pool(UserPoolId=pool_id)['UserPool']
        client = cognito_client.describe_user_pool_client(
            UserPoolId=pool_id, ClientId=client_id
        )['UserPoolClient']
    except (ClientError, NoCredentialsError) as e:
        print(f"   ⚠️  Could not describe the user pool: {e}")
        return None

    device_config = pool.get('DeviceConfiguration') or {}
    flows = client.get('ExplicitAuthFlows', [])
    return {
        'Pool name': pool.get('Name', pool_id),
        'Password sign-in': 'enabled' if 'ALLOW_USER_PASSWORD_AUTH' in flows else 'DISABLED',
        'Refresh tokens': 'enabled' if 'ALLOW_REFRESH_TOKEN_AUTH' in flows else 'DISABLED',
        'Client secret': 'yes' if client.get('ClientSecret') else 'no',
        'Device tracking': (
            'remembered on user prompt' if device_config.get('DeviceOnlyRememberedOnUserPrompt')
            else 'always' if device_config else 'off'
        ),
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the Cognito session service locally")
    parser.add_argument('--host', default='0.0.0.0')
    parser.add_argument('--port', type=int, default=8000)
    parser.add_argument('--no-reload', action='store_true', help="Disable auto reload")
    parser.add_argument(
        '--stack-name',
        default=os.getenv('COGNITO_STACK_NAME', 'CognitoDemo-UserPool'),
        help="CloudFormation stack exporting UserPoolId/UserPoolClientId"
    )
    parser.add_argument('--env-file', default=os.path.join(os.path.dirname(__file__), '.env'))
    parser.add_argument('--check', action='store_true', help="Validate and describe the pool, then exit")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    print("🚀 Cognito Session Development Server")
    print("=" * 50)

    apply_env_file(args.env_file)
    fill_from_stack(args.stack_name, os.getenv("AWS_REGION", "ap-northeast-1"))

    # Config classes read the environment at import time
    from cognito_session.auth import InvalidConfiguration
    from cognito_session.utils.config import get_config

    config = get_config()
    provider_config = config.get_provider_config()
    try:
        provider_config.validate_config()
    except InvalidConfiguration as e:
        print(f"❌ Configuration Error: {e.message}")
        print("\n💡 Troubleshooting:")
        print("   1. Set COGNITO_USER_POOL_ID and COGNITO_CLIENT_ID (or add them to .env)")
        print("   2. Make sure AWS_REGION matches the user pool ID prefix")
        print("   3. Pass --stack-name if the pool is deployed by a different stack")
        sys.exit(1)

    print(f"✅ User pool {provider_config.pool_id} / client {provider_config.client_id}")
    print(f"   Environment: {config.__class__.__name__} (debug={config.DEBUG})")
    print(f"   Session file: {config.COGNITO_SESSION_FILE}")
    print(f"   Request timeout: {config.request_timeout or 'none'}")

    if args.check:
        summary = describe_pool(provider_config.region, provider_config.pool_id, provider_config.client_id)
        for label, value in (summary or {}).items():
            print(f"   {label}: {value}")
        return

    print(f"Server: http://localhost:{args.port}")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        uvicorn.run(
            "cognito_session.main:app",
            host=args.host,
            port=args.port,
            reload=not args.no_reload,
            reload_dirs=["cognito_session"],
            log_level="debug" if config.DEBUG else "info",
            access_log=True
        )
    except KeyboardInterrupt:
        print("\n👋 Server stopped by user")


if __name__ == "__main__":
    main()
