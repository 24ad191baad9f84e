import os
import sys
import textwrap

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

sys.path.append(
    os.path.abspath(
        os.path.join(os.path.dirname(__file__), "..", "..")
    )
)

from episode_service.services.conversion import ConversionJob
from episode_service.services.object_store import ArtifactLocation, ObjectStore

PRIMARY_BUCKET = "primary-bucket"
USER_BUCKET = "user-bucket"


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the store makes."""

    def __init__(self):
        self.objects = {}
        self.head_calls = []
        self.fail_head = False
        self.fail_upload = False
        self.fail_sign = False

    def put(self, bucket, key, body=b"", content_type="video/mp4"):
        self.objects[(bucket, key)] = {"Body": body, "ContentType": content_type}

    def head_object(self, Bucket, Key):
        self.head_calls.append((Bucket, Key))
        if self.fail_head:
            raise EndpointConnectionError(endpoint_url="https://r2.invalid")
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[(Bucket, Key)]["Body"])}

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None):
        if self.fail_upload:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
        self.put(Bucket, Key, Fileobj.read(), (ExtraArgs or {}).get("ContentType"))

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn, HttpMethod=None):
        if self.fail_sign:
            raise ClientError({"Error": {"Code": "InvalidAccessKeyId", "Message": "bad key"}}, "GetObject")
        return f"https://signed.example/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def store(s3_client):
    return ObjectStore(
        buckets={
            ArtifactLocation.PRIMARY: PRIMARY_BUCKET,
            ArtifactLocation.USER: USER_BUCKET,
        },
        client=s3_client,
    )


def fake_ffmpeg_script(stderr_lines, exit_code=0, payload=b"mp4-bytes"):
    """Python source that mimics ffmpeg: stats on stderr, an output file, an exit code."""
    return textwrap.dedent(f"""
        import sys
        out = sys.argv[1]
        for line in {list(stderr_lines)!r}:
            sys.stderr.write(line)
            sys.stderr.flush()
        with open(out, "wb") as fh:
            fh.write({payload!r})
        sys.exit({exit_code})
    """)


FFMPEG_STDERR = [
    "ffmpeg version 6.1 Copyright (c) 2000-2023 the FFmpeg developers\n",
    "Input #0, hls, from 'http://x/manifest.m3u8':\n",
    "  Duration: 00:00:10.00, start: 1.400000, bitrate: 0 kb/s\n",
    "frame=  100 fps=0.0 q=-1.0 size=     256kB time=00:00:02.50 bitrate= 838.9kbits/s speed=5x\r",
    "frame=  200 fps=0.0 q=-1.0 size=     512kB time=00:00:05.00 bitrate= 838.9kbits/s speed=5x\r",
    "frame=  400 fps=0.0 q=-1.0 Lsize=    1024kB time=00:00:10.00 bitrate= 838.9kbits/s speed=5x\n",
]


def make_fake_job_class(stderr_lines=FFMPEG_STDERR, exit_code=0, spawned=None):
    """ConversionJob whose process is a Python child instead of ffmpeg."""
    script = fake_ffmpeg_script(stderr_lines, exit_code)

    class FakeFfmpegJob(ConversionJob):
        def build_command(self):
            return [sys.executable, "-c", script, str(self.output_path)]

        async def run(self):
            if spawned is not None:
                spawned.append(self.job_id)
            return await super().run()

    return FakeFfmpegJob
