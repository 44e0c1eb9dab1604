"""Terraform executors: infrastructure apply, destroy and the state probe.

Remote state lives in a per-account S3 bucket
(``astraops-tfstate-{accountId}``) under a fixed key
(``infrastructure/terraform.tfstate``).  Both executors initialise the
same backend and pass the same variables, so ``plan``/``apply``/``destroy``
always target the cluster named after the application.

Apply:
    version → ensure state bucket → report remote state → init →
    wait out in-flight EKS updates → plan -detailed-exitcode
    (0 no changes / 2 changes / other failure) → drop stale KMS alias →
    apply → on failure wait for updates again and retry exactly once.

Destroy:
    version → init → best-effort pre-delete of the app namespace and the
    monitoring release → destroy → best-effort purge of the state bucket.

    The pre-delete has no rollback: if ``terraform destroy`` then fails,
    the namespace is gone while the cluster remains.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from astraops.core.logging import get_logger
from astraops.deploy.executors.base import ExecutorResult, PhaseExecutor
from astraops.jobs.models import LogPhase

log = get_logger(__name__)

STATE_KEY = "infrastructure/terraform.tfstate"
TF_PREFIX = "terraform:"

# Passed to ``aws s3api put-public-access-block``.
_PUBLIC_ACCESS_BLOCK = (
    "BlockPublicAcls=true,IgnorePublicAcls=true,BlockPublicPolicy=true,RestrictPublicBuckets=true"
)
_DEFAULT_ENCRYPTION = json.dumps(
    {"Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}]}
)


def state_bucket_name(account_id: str) -> str:
    return f"astraops-tfstate-{account_id}"


@dataclass(frozen=True)
class InfrastructureState:
    """What the remote state object says about existing infrastructure."""

    exists: bool
    healthy: bool
    version: str | None = None
    last_update: str | None = None


class _TerraformExecutor(PhaseExecutor):
    """Backend and variable plumbing shared by apply and destroy."""

    log_phase = LogPhase.INFRASTRUCTURE

    # Bounded wait for in-flight EKS updates.
    update_wait_attempts: int = 20
    update_wait_delay: float = 30.0

    @property
    def workdir(self) -> str:
        return str(self.settings.terraform_dir)

    @property
    def bucket(self) -> str:
        return state_bucket_name(self.request.account_id)

    def tf_vars(self) -> list[str]:
        role = self.request.role_arn
        return [
            f"-var=region={self.region}",
            f"-var=cluster_name={self.cluster_name}",
            f"-var=access_principals={json.dumps([role] if role else [])}",
            f"-var=execution_role_arn={role}",
        ]

    async def terraform(self, *args: str) -> bool:
        return await self.run_ok(["terraform", *args], prefix=TF_PREFIX, cwd=self.workdir)

    async def check_terraform(self) -> bool:
        self.info(f"Terraform directory (backend): {self.workdir}")
        if not await self.terraform("version"):
            self.error("Terraform not available or directory missing.")
            return False
        return True

    async def init_backend(self) -> bool:
        self.info(f"Running terraform init (S3 backend: {self.bucket}/{STATE_KEY})...")
        ok = await self.terraform(
            "init",
            "-input=false",
            "-reconfigure",
            f"-backend-config=bucket={self.bucket}",
            f"-backend-config=key={STATE_KEY}",
            f"-backend-config=region={self.region}",
            "-backend-config=encrypt=true",
        )
        if not ok:
            self.error("Terraform init failed")
        return ok

    async def _update_in_progress(self) -> bool:
        listing = await self.run_json(
            ["aws", "eks", "list-updates", "--name", self.cluster_name, "--region", self.region, "--output", "json"],
            prefix="aws-eks:",
        )
        # No cluster yet (or no permission to look): nothing to wait for.
        if not isinstance(listing, dict):
            return False
        for update_id in listing.get("updateIds") or []:
            described = await self.run_json(
                [
                    "aws", "eks", "describe-update",
                    "--name", self.cluster_name,
                    "--update-id", update_id,
                    "--region", self.region,
                    "--output", "json",
                ],
                prefix="aws-eks:",
            )
            if isinstance(described, dict) and (described.get("update") or {}).get("status") == "InProgress":
                return True
        return False

    async def wait_for_eks_updates(self) -> bool:
        """True once no EKS update is InProgress; False when the attempt cap is hit."""
        for attempt in range(self.update_wait_attempts):
            if not await self._update_in_progress():
                return True
            if attempt < self.update_wait_attempts - 1:
                self.info(f"EKS has update InProgress; waiting {round(self.update_wait_delay)}s...")
                await self.sleep(self.update_wait_delay)
        return False


class InfrastructureApplyExecutor(_TerraformExecutor):
    """Provision (or converge) the cluster with ``terraform apply``."""

    tool_missing_message = "Terraform execution error (spawn failed or not installed)"
    apply_retry_delay: float = 15.0

    async def execute(self) -> ExecutorResult:
        if not await self.check_terraform():
            return ExecutorResult.failed(step="version")
        if not await self.ensure_state_bucket():
            return ExecutorResult.failed(step="state_bucket")
        await self.report_remote_state()
        if not await self.init_backend():
            return ExecutorResult.failed(step="init")

        self.info(f"Checking in-flight EKS updates for cluster: {self.cluster_name}")
        if not await self.wait_for_eks_updates():
            self.info("Proceeding despite update check timeout (best-effort)")

        self.info("Running terraform plan (detailed-exitcode)...")
        plan = await self.run(
            ["terraform", "plan", "-detailed-exitcode", "-input=false", *self.tf_vars()],
            prefix=TF_PREFIX,
            cwd=self.workdir,
        )
        if plan.exit_code == 0:
            self.success("Infrastructure up-to-date (no changes)")
            return ExecutorResult(success=True, skipped=True)
        if plan.exit_code != 2:
            self.error("Terraform plan failed")
            return ExecutorResult.failed(step="plan", exit_code=plan.exit_code)

        await self.non_fatal("KMS alias cleanup", self.delete_stale_kms_alias())

        self.info("Changes detected. Running terraform apply...")
        if not await self.apply():
            self.info("Apply failed; waiting for in-flight EKS updates (best-effort) and retrying...")
            await self.wait_for_eks_updates()
            await self.sleep(self.apply_retry_delay)
            if not await self.apply():
                self.error("Terraform apply failed")
                return ExecutorResult.failed(step="apply")

        self.success("Terraform apply completed")
        return ExecutorResult(success=True)

    async def apply(self) -> bool:
        return await self.terraform("apply", "-auto-approve", "-input=false", *self.tf_vars())

    async def ensure_state_bucket(self) -> bool:
        head = await self.run(
            ["aws", "s3api", "head-bucket", "--bucket", self.bucket, "--region", self.region],
            prefix="aws-s3:",
            capture=True,
        )
        if head.ok:
            self.info(f"S3 backend bucket exists: {self.bucket}")
            return True

        self.info(f"S3 backend bucket not found. Creating: {self.bucket}")
        create = ["aws", "s3api", "create-bucket", "--bucket", self.bucket, "--region", self.region]
        if self.region != "us-east-1":
            create += ["--create-bucket-configuration", f"LocationConstraint={self.region}"]
        if not await self.run_ok(create, prefix="aws-s3:"):
            self.error(f"Failed to create S3 bucket: {self.bucket}")
            return False
        self.success(f"S3 bucket created: {self.bucket}")

        s3api = ["aws", "s3api"]
        tail = ["--bucket", self.bucket, "--region", self.region]
        await self.non_fatal(
            "Bucket versioning",
            self.run_ok(
                [*s3api, "put-bucket-versioning", *tail, "--versioning-configuration", "Status=Enabled"],
                prefix="aws-s3:",
            ),
        )
        await self.non_fatal(
            "Bucket encryption",
            self.run_ok(
                [*s3api, "put-bucket-encryption", *tail, "--server-side-encryption-configuration", _DEFAULT_ENCRYPTION],
                prefix="aws-s3:",
            ),
        )
        await self.non_fatal(
            "Bucket public access block",
            self.run_ok(
                [*s3api, "put-public-access-block", *tail, "--public-access-block-configuration", _PUBLIC_ACCESS_BLOCK],
                prefix="aws-s3:",
            ),
        )
        return True

    async def report_remote_state(self) -> None:
        head = await self.run(
            ["aws", "s3api", "head-object", "--bucket", self.bucket, "--key", STATE_KEY, "--region", self.region],
            prefix="aws-s3:",
            capture=True,
        )
        if head.ok:
            self.info(f"Existing remote state found at {self.bucket}/{STATE_KEY}.")
        else:
            self.info(f"No existing remote state at {self.bucket}/{STATE_KEY} (first run).")

    async def delete_stale_kms_alias(self) -> bool:
        """Remove ``alias/eks/<cluster>`` left behind by a previous cluster."""
        alias = f"alias/eks/{self.cluster_name}"
        found = await self.run(
            [
                "aws", "kms", "list-aliases",
                "--query", f"Aliases[?AliasName=='{alias}'].AliasName",
                "--output", "text",
                "--region", self.region,
            ],
            prefix="aws-kms:",
            capture=True,
        )
        if not found.ok or found.stdout.strip() != alias:
            return True
        self.info(f"Found existing KMS alias {alias}, deleting (best-effort)...")
        return await self.run_ok(
            ["aws", "kms", "delete-alias", "--alias-name", alias, "--region", self.region],
            prefix="aws-kms:",
        )


class InfrastructureDestroyExecutor(_TerraformExecutor):
    """Tear the cluster down with ``terraform destroy``."""

    tool_missing_message = "Terraform destroy execution error"

    async def execute(self) -> ExecutorResult:
        if not await self.check_terraform():
            return ExecutorResult.failed(step="version")
        if not await self.init_backend():
            return ExecutorResult.failed(step="init")

        with self.scratch_file(f".kubeconfig-destroy-{self.job_id}") as kubeconfig:
            if await self.non_fatal("Cluster access for pre-delete", self.update_kubeconfig(kubeconfig)):
                env = {**self.env, "KUBECONFIG": str(kubeconfig)}
                self.info(f"Best-effort: deleting namespace {self.cluster_name} before destroy...")
                await self.non_fatal(
                    "Namespace pre-delete",
                    self.run_ok(
                        ["kubectl", "delete", "ns", self.cluster_name, "--wait=true", "--ignore-not-found"],
                        prefix="kubectl:",
                        env=env,
                    ),
                )
                await self.non_fatal("Monitoring release removal", self._remove_monitoring(env))

        self.info("Running terraform destroy...")
        if not await self.terraform("destroy", "-auto-approve", "-input=false", *self.tf_vars()):
            self.error("Terraform destroy failed")
            return ExecutorResult.failed(step="destroy")
        self.success("Terraform destroy completed")

        await self.non_fatal("Terraform state cleanup", self.purge_state_bucket())
        return ExecutorResult(success=True)

    async def _remove_monitoring(self, env: dict[str, str]) -> bool:
        self.info("Best-effort: removing monitoring release and namespace...")
        await self.run(
            ["helm", "uninstall", "monitoring", "-n", "monitoring", "--ignore-not-found"],
            prefix="helm:",
            env=env,
        )
        return await self.run_ok(
            ["kubectl", "delete", "ns", "monitoring", "--wait=true", "--ignore-not-found"],
            prefix="kubectl:",
            env=env,
        )

    async def purge_state_bucket(self) -> bool:
        """Delete every object version and delete marker, then the bucket."""
        self.info("Cleaning up Terraform state in S3...")
        listing = await self.run_json(
            ["aws", "s3api", "list-object-versions", "--bucket", self.bucket, "--region", self.region, "--output", "json"],
            prefix="aws-s3:",
        )
        if isinstance(listing, dict):
            objects = [
                {"Key": item["Key"], "VersionId": item["VersionId"]}
                for group in ("Versions", "DeleteMarkers")
                for item in listing.get(group) or []
            ]
            # delete-objects accepts at most 1000 keys per call.
            for start in range(0, len(objects), 1000):
                batch = {"Objects": objects[start:start + 1000], "Quiet": True}
                await self.run(
                    [
                        "aws", "s3api", "delete-objects",
                        "--bucket", self.bucket,
                        "--region", self.region,
                        "--delete", json.dumps(batch),
                    ],
                    prefix="aws-s3:",
                )

        self.info(f"Removing S3 bucket {self.bucket} (force)...")
        return await self.run_ok(
            ["aws", "s3", "rb", f"s3://{self.bucket}", "--force", "--region", self.region],
            prefix="aws-s3:",
        )


class InfrastructureStateProbe(PhaseExecutor):
    """Read the remote state object and judge whether it is usable.

    Missing bucket or object → ``exists=False``.  An object that cannot be
    downloaded or parsed as terraform state → ``exists=True, healthy=False``.
    """

    log_phase = LogPhase.INFRASTRUCTURE

    async def execute(self) -> ExecutorResult:
        state = await self.check()
        return ExecutorResult(success=state.healthy or not state.exists, detail={"state": state})

    async def check(self) -> InfrastructureState:
        bucket = state_bucket_name(self.request.account_id)
        head = await self.run_json(
            ["aws", "s3api", "head-object", "--bucket", bucket, "--key", STATE_KEY, "--region", self.region, "--output", "json"],
            prefix="aws-s3:",
        )
        if not isinstance(head, dict):
            return InfrastructureState(exists=False, healthy=False)

        body = await self.run(
            ["aws", "s3", "cp", f"s3://{bucket}/{STATE_KEY}", "-", "--region", self.region],
            prefix="aws-s3:",
            capture=True,
        )
        if not body.ok:
            return InfrastructureState(exists=True, healthy=False)
        try:
            state = json.loads(body.stdout)
        except json.JSONDecodeError:
            log.warning("infra.state_unparseable", job_id=self.job_id, bucket=bucket)
            return InfrastructureState(exists=True, healthy=False)
        if not isinstance(state, dict) or "version" not in state:
            return InfrastructureState(exists=True, healthy=False)
        return InfrastructureState(
            exists=True,
            healthy=True,
            version=state.get("terraform_version"),
            last_update=head.get("LastModified"),
        )
