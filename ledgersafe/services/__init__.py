"""Services package: storage backends, cloud backends and the item catalog."""
