import asyncio

from imgjobs.config.logging import get_logger
from imgjobs.core.exceptions import MetadataError
from imgjobs.core.registries import ImageEncoder
from imgjobs.infra.metadata import FileOptions, MetadataStore
from imgjobs.infra.queue import MessageQueue
from imgjobs.infra.storage import BlobStore
from imgjobs.jobs.models import Job
from imgjobs.jobs.transform import transform_image

logger = get_logger(__name__)


class ImageProcessor:
    """
    Runs the pipeline for one admitted job.

    Step order is what makes redelivery safe: the message is acknowledged
    only after the output is stored, the source deleted and the download
    reference published. A redelivered message whose source is already gone
    fails at the first step and counts towards the abort threshold.
    """

    def __init__(
        self,
        queue: MessageQueue,
        blobs: BlobStore,
        metadata: MetadataStore,
        encoder: ImageEncoder,
        quality: int = 10,
    ):
        self.queue = queue
        self.blobs = blobs
        self.metadata = metadata
        self.encoder = encoder
        self.quality = quality

    async def process(self, job: Job) -> str:
        """Process ``job`` and return the signed download URL."""
        source = await self.blobs.get(job.key)

        options = await self._load_options(job)

        output = await asyncio.to_thread(
            transform_image,
            source,
            self.encoder,
            self.quality,
            options.width,
            options.height,
        )

        output_key = job.output_key()
        await self.blobs.put(output_key, output, self.encoder.content_type)
        await self.blobs.delete(job.key)

        download = await self.blobs.signed_url(output_key)
        await self.metadata.set_download(options, download)

        await self.queue.delete(job.receipt_handle)

        logger.debug(
            "Job pipeline finished",
            output_key=output_key,
            input_bytes=len(source),
            output_bytes=len(output),
        )
        return download

    async def _load_options(self, job: Job) -> FileOptions:
        """Requested dimensions; a lookup failure means original size."""
        session_id = job.session() or ""
        filename = job.filename()
        try:
            options = await self.metadata.find_file(session_id, filename)
        except MetadataError as e:
            logger.warning(
                "Metadata lookup failed, keeping original dimensions",
                session_id=session_id,
                file=filename,
                error=e.message,
            )
            return FileOptions(session_id=session_id, filename=filename)

        if options is None:
            logger.info(
                "No metadata row for file, keeping original dimensions",
                session_id=session_id,
                file=filename,
            )
            return FileOptions(session_id=session_id, filename=filename)
        return options
