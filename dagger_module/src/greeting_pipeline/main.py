"""Dagger pipeline for the greeting service.

This module tests the service in containers, builds the production image from
the Dockerfile, pushes it to ECR and forces a new ECS deployment. Rolling
replacement, health checks and task draining are left to ECS.
"""

import asyncio
from datetime import datetime, timezone

import dagger as dg
from dagger import dag, function, object_type

SERVICE_PORT = 3000
AWS_CLI_IMAGE = "amazon/aws-cli:latest"
UV_IMAGE = "ghcr.io/astral-sh/uv:python{python_version}-bookworm-slim"
SOURCE_EXCLUDES = [".git", ".venv", ".env", "**/__pycache__", "dagger_module"]


@object_type
class GreetingPipeline:
    """CI/CD functions for the greeting service, using uv for installs.

    The release path is linear:
    - build the image and push it to the registry
    - force a new deployment of the existing ECS service

    A failing step raises, so `dagger call` exits non-zero and later steps
    never run.
    """

    # Base container creation
    @function
    def test_container(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Container:
        """Python container with the service sources mounted at /app.

        Local env files, virtualenvs and the pipeline module itself stay out,
        so tests see the same defaults as the image.

        Args:
            source: Repository root
            python_version: Python version to use (default: 3.12)
        """
        uv_cache = dag.cache_volume("greeting-service-uv")

        return (
            dag.container()
            .from_(UV_IMAGE.format(python_version=python_version))
            .with_mounted_cache("/root/.cache/uv", uv_cache)
            .with_directory("/app", source, exclude=SOURCE_EXCLUDES)
            .with_workdir("/app")
            .with_env_variable("UV_SYSTEM_PYTHON", "1")
        )

    # Unit testing functions
    @function
    async def unit_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run unit tests with pytest.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Test output from pytest
        """
        return await self.run_test(source, "tests/unit", python_version)

    @function
    async def unit_test_matrix(
        self, source: dg.Directory, versions: str = "3.10,3.11,3.12"
    ) -> str:
        """Run unit tests concurrently on multiple Python versions.

        Args:
            source: Directory containing the source code
            versions: Comma-separated list of Python versions

        Returns:
            Formatted test results for all versions
        """
        version_list = [v.strip() for v in versions.split(",")]

        async def test_version(version: str) -> tuple[str, str]:
            try:
                result = await self.unit_test(source, version)
                return version, f"Python {version}: PASSED\n{result}"
            except dg.ExecError as e:
                return version, f"Python {version}: FAILED\n{e.stdout}{e.stderr}"

        results = await asyncio.gather(*[test_version(v) for v in version_list])

        output_lines = ["=== MULTI-VERSION TEST RESULTS ===", ""]
        for _, result in results:
            output_lines.extend([result, "=" * 50, ""])

        return "\n".join(output_lines)

    @function
    async def run_test(
        self,
        source: dg.Directory,
        path: str = "tests",
        python_version: str = "3.12",
        keyword: str = "",
    ) -> str:
        """Install greeting-service with its test extra and run pytest.

        Without an API_BASE_URL the e2e tests start their own service
        process inside the container.

        Args:
            source: Repository root
            path: Test file or directory, e.g. tests/unit/test_app.py
            python_version: Python version to use
            keyword: Optional pytest -k expression
        """
        pytest_cmd = ["pytest", path, "-v", "--tb=short"]
        if keyword:
            pytest_cmd.extend(["-k", keyword])

        return await (
            self.test_container(source, python_version)
            .with_exec(["uv", "pip", "install", "-e", ".[test]"])
            .with_exec(pytest_cmd)
            .stdout()
        )

    # Service-related functions
    @function
    def api_service(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> dg.Service:
        """Run the greeting service from source as a Dagger service.

        The service listens on all interfaces on port 3000 and can be bound
        into other containers under an alias.

        Args:
            source: Directory containing the application code
            python_version: Python version to use (default: 3.12)

        Returns:
            A Dagger service running the greeting service
        """
        return (
            self.test_container(source, python_version)
            .with_exec(["uv", "pip", "install", "-e", "."])
            .with_env_variable("GREETING_SERVICE_PORT", str(SERVICE_PORT))
            .with_exposed_port(SERVICE_PORT)
            .as_service(args=["python", "-m", "greeting_service"])
        )

    def curl_client(self) -> dg.Container:
        return dag.container().from_("alpine:latest").with_exec(
            ["apk", "add", "--no-cache", "curl", "jq"]
        )

    @function
    async def test_api_service(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Send requests to the running service and report the responses.

        Binds the service under the hostname 'api' and curls the greeting
        and health endpoints.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Test results showing API responses
        """
        api_svc = self.api_service(source, python_version)
        test_client = self.curl_client().with_service_binding("api", api_svc)

        root_response = await test_client.with_exec(
            ["curl", "-fsS", f"http://api:{SERVICE_PORT}/"]
        ).stdout()

        health_pretty = await test_client.with_exec(
            ["sh", "-c", f"curl -fsS http://api:{SERVICE_PORT}/health | jq ."]
        ).stdout()

        result_lines = [
            "=== API SERVICE TEST RESULTS ===",
            "",
            "Root Endpoint (GET /):",
            root_response,
            "",
            "Health Endpoint (GET /health):",
            health_pretty,
            "",
            "All endpoints responded successfully!",
        ]

        return "\n".join(result_lines)

    @function
    async def integration_test(
        self, source: dg.Directory, python_version: str = "3.12"
    ) -> str:
        """Run the e2e pytest suite against a live service.

        Args:
            source: Directory containing the source code
            python_version: Python version to use

        Returns:
            Integration test results from pytest
        """
        api_svc = self.api_service(source, python_version)

        return await (
            self.test_container(source, python_version)
            .with_service_binding("api", api_svc)
            .with_env_variable("API_BASE_URL", f"http://api:{SERVICE_PORT}")
            .with_exec(["uv", "pip", "install", "-e", ".[test]"])
            .with_exec(["pytest", "tests/e2e", "-v", "--tb=short"])
            .stdout()
        )

    # Image functions
    @function
    def build(self, source: dg.Directory) -> dg.Container:
        """Build the production image from the repository Dockerfile.

        Args:
            source: Directory containing the Dockerfile and application code

        Returns:
            The built image
        """
        return source.docker_build()

    @function
    async def container_smoke_test(
        self, source: dg.Directory, startup_timeout: int = 5
    ) -> str:
        """Run the built image and check that GET / answers in time.

        Args:
            source: Directory containing the Dockerfile and application code
            startup_timeout: Seconds the container gets to start answering

        Returns:
            Body returned by GET /
        """
        app_svc = (
            self.build(source).with_exposed_port(SERVICE_PORT).as_service()
        )

        return await (
            self.curl_client()
            .with_service_binding("app", app_svc)
            .with_exec(
                [
                    "curl",
                    "-fsS",
                    "--retry-connrefused",
                    "--retry", "50",
                    "--retry-delay", "0",
                    "--retry-max-time", str(startup_timeout),
                    "--max-time", str(startup_timeout),
                    f"http://app:{SERVICE_PORT}/",
                ]
            )
            .stdout()
        )

    # Deployment functions
    def aws_cli(
        self,
        region: str,
        aws_access_key_id: dg.Secret,
        aws_secret_access_key: dg.Secret,
    ) -> dg.Container:
        return (
            dag.container()
            .from_(AWS_CLI_IMAGE)
            .with_secret_variable("AWS_ACCESS_KEY_ID", aws_access_key_id)
            .with_secret_variable("AWS_SECRET_ACCESS_KEY", aws_secret_access_key)
            .with_env_variable("AWS_DEFAULT_REGION", region)
        )

    @function
    async def publish(
        self,
        source: dg.Directory,
        registry: str,
        repository: str,
        region: str,
        aws_access_key_id: dg.Secret,
        aws_secret_access_key: dg.Secret,
        tag: str = "latest",
    ) -> str:
        """Build the image and push it to ECR.

        Args:
            source: Directory containing the Dockerfile and application code
            registry: Registry host, e.g. <account>.dkr.ecr.<region>.amazonaws.com
            repository: ECR repository name
            region: AWS region of the registry
            aws_access_key_id: AWS access key id
            aws_secret_access_key: AWS secret access key
            tag: Image tag to push

        Returns:
            The pushed image reference, including its digest
        """
        password = await (
            self.aws_cli(region, aws_access_key_id, aws_secret_access_key)
            .with_env_variable("CACHEBUSTER", datetime.now(timezone.utc).isoformat())
            .with_exec(["aws", "ecr", "get-login-password", "--region", region])
            .stdout()
        )
        registry_password = dag.set_secret("ecr-password", password.strip())

        return await (
            self.build(source)
            .with_registry_auth(registry, "AWS", registry_password)
            .publish(f"{registry}/{repository}:{tag}")
        )

    @function
    async def deploy(
        self,
        cluster: str,
        service: str,
        region: str,
        aws_access_key_id: dg.Secret,
        aws_secret_access_key: dg.Secret,
    ) -> str:
        """Force a new deployment of the existing ECS service.

        ECS pulls the image named in the current task definition and replaces
        running tasks gradually. Running tasks are untouched if this fails.

        Args:
            cluster: ECS cluster name
            service: ECS service name
            region: AWS region of the cluster
            aws_access_key_id: AWS access key id
            aws_secret_access_key: AWS secret access key

        Returns:
            The id of the deployment ECS started
        """
        return await (
            self.aws_cli(region, aws_access_key_id, aws_secret_access_key)
            .with_env_variable("CACHEBUSTER", datetime.now(timezone.utc).isoformat())
            .with_exec(
                [
                    "aws", "ecs", "update-service",
                    "--cluster", cluster,
                    "--service", service,
                    "--force-new-deployment",
                    "--region", region,
                    "--query", "service.deployments[0].id",
                    "--output", "text",
                ]
            )
            .stdout()
        )

    @function
    async def release(
        self,
        source: dg.Directory,
        registry: str,
        repository: str,
        region: str,
        cluster: str,
        service: str,
        aws_access_key_id: dg.Secret,
        aws_secret_access_key: dg.Secret,
        tag: str = "latest",
    ) -> str:
        """Push a new image, then roll it out to ECS.

        The deploy step only runs after the push succeeded. There is no
        rollback; re-run with a previous tag to go back.

        Returns:
            Summary of the pushed image and the started deployment
        """
        image_ref = await self.publish(
            source,
            registry,
            repository,
            region,
            aws_access_key_id,
            aws_secret_access_key,
            tag,
        )
        deployment_id = await self.deploy(
            cluster, service, region, aws_access_key_id, aws_secret_access_key
        )

        return "\n".join(
            [
                "=== RELEASE ===",
                f"Image: {image_ref}",
                f"Cluster: {cluster}",
                f"Service: {service}",
                f"Deployment: {deployment_id.strip()}",
            ]
        )
