from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='LinkSuggestion',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_document_id', models.CharField(db_index=True, max_length=64)),
                ('source_slug', models.CharField(blank=True, max_length=255)),
                ('source_title', models.CharField(blank=True, max_length=300)),
                ('target_document_id', models.CharField(db_index=True, max_length=64)),
                ('target_slug', models.CharField(max_length=255)),
                ('target_title', models.CharField(blank=True, max_length=300)),
                ('anchor_text', models.CharField(max_length=300)),
                ('field_name', models.CharField(max_length=50)),
                ('position', models.PositiveIntegerField(default=0)),
                ('sentence_context', models.TextField(blank=True)),
                ('relevance_score', models.PositiveSmallIntegerField(default=0)),
                ('keyword_type', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('applied', 'Applied')], db_index=True, default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('applied_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
            ],
            options={
                'ordering': ['-relevance_score', '-created_at'],
            },
        ),
        migrations.CreateModel(
            name='OrphanPage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('document_id', models.CharField(max_length=64, unique=True)),
                ('slug', models.CharField(max_length=255)),
                ('title', models.CharField(blank=True, max_length=300)),
                ('incoming_links', models.PositiveIntegerField(default=0)),
                ('outgoing_links', models.PositiveIntegerField(default=0)),
                ('is_orphan', models.BooleanField(db_index=True, default=False)),
                ('priority', models.CharField(choices=[('high', 'High'), ('low', 'Low')], default='low', max_length=10)),
                ('last_checked', models.DateTimeField()),
            ],
            options={
                'ordering': ['incoming_links', 'slug'],
            },
        ),
    ]
